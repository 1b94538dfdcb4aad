from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name="mcpost",
    version="0.1.0",
    description="Posterior distributions and credible regions from weighted Markov chains",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "demos"]),
    python_requires=">=3.9",
    install_requires=["numpy", "scipy"],
    extras_require={"tests": ["pytest", "hypothesis"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
