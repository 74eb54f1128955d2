from setuptools import setup, find_packages

setup(
    name="qpwrappers",
    version="0.1.0",
    packages=find_packages(exclude=["test", "test.*"]),
    install_requires=["numpy", "scipy", "matplotlib", "osqp"],
    extras_require={"test": ["pytest"]},
    python_requires=">=3.10",
    description="Backend-agnostic engines for solving sequences of related quadratic programs",
    license="MIT",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License"
    ]
)
