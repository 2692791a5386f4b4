from setuptools import setup, find_packages

setup(
    name="lnlnp_neurons",
    version="0.1.0",
    description="Synthetic sensory neurons from an LN-LNP subunit cascade",
    author="Synthetic Neurons Project",
    packages=find_packages(exclude=["tests", "tests.*", "scripts"]),
    install_requires=[
        line.strip()
        for line in open('requirements.txt')
        if line.strip() and not line.startswith('#')
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
    ],
)
