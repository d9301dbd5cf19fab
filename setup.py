from setuptools import setup, find_packages


setup(
    name="tartarus",
    version="1.0.0",
    packages=find_packages(include=["tartarus", "tartarus.*"]),
    description="Streaming tar + deflate + AES-CTR/HMAC pipeline and file-management tooling.",
    author="ssongin",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "tartarus=tartarus.cli:main",
        ]
    },
)
