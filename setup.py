from setuptools import setup, find_packages

# defines __version__
exec(open("rawreq/_version.py").read())

setup(
    name="rawreq",
    version=__version__,
    description=
        "Send raw HTTP/1.1 requests concurrently and capture the exact response bytes",
    long_description=open("README.rst").read(),
    license="MIT",
    packages=find_packages(exclude=["rawreq.tests"]),
    install_requires=[
        "curio >= 1.4",
        "structlog >= 21.1",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["rawreq = rawreq._cli:main"],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: System :: Networking",
    ],
)
