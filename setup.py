from setuptools import setup, find_packages

setup(
    name='pool-settlement-engine',
    version='0.1.0',
    packages=find_packages(include=['app', 'app.*'], exclude=['app.engine.tests']),
    install_requires=[
        'numpy',
        'python-dotenv',
        'typing_extensions',
    ],
    extras_require={
        'test': ['pytest'],
    },
    description='Deterministic Python engine for pari-mutuel exchange and liquidity crash simulators: pools, live odds, cashout valuation and settlement.',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.11',
)
