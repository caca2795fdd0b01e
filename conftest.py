# Puts the repository root on sys.path so the tests import the app package from a checkout.
