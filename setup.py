from setuptools import find_packages, setup

setup(
    name="ebicsclient",
    version="0.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "pydantic",
        "cryptography",
        "requests",
        "click",
        "lxml",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "ebicsclient=ebicsclient.cli:cli",
        ],
    },
)
