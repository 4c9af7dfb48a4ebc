from setuptools import setup, find_packages
from nounsnode._version import __version__

setup(
    name="nouns-node",
    version=__version__,
    description="Replays and follows Nouns DAO contract logs into a relational snapshot.",
    author="Nouns Node",
    license="MIT license",
    python_requires=">=3.9",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "web3",
        "eth-abi",
        "eth-utils",
        "sanic",
        "sanic-ext",
        "psycopg2-binary",
        "python-dotenv",
        "PyYAML",
        "argh",
        "websockets",
        "websocket-client",
        "aiohttp",
    ],
    extras_require={
        "test": ["pytest", "pytest-asyncio", "sanic-testing"],
    },
    entry_points={
        "console_scripts": ["nounsnode=nounsnode.cli:main"],
    },
)
