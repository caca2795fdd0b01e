# app/services/__init__.py

# Stateful simulators handed to a presentation layer. Each one owns its
# pools and round state and exposes query and command methods.
from .exchange import ExchangeSimulator
from .crash import CrashSimulator
from .results import success, failure
