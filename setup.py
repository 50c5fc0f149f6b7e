# flake8: noqa
from codecs import open

from setuptools import setup, find_packages

with open("README.md", encoding="utf-8") as f:
    LONG_DESCRIPTION = f.read()

with open("requirements.txt") as requirements:
    REQUIREMENTS = [r.strip() for r in requirements if r != "\n"]

setup(
    name="simplenn",
    version="0.1.0",
    description="Chained dense, convolutional, and recurrent layers in NumPy",
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    install_requires=REQUIREMENTS,
    packages=find_packages(include=["simplenn", "simplenn.*"]),
    license="GPLv3+",
    include_package_data=True,
    python_requires=">=3.7",
    extras_require={
        "plots": ["matplotlib", "seaborn"],
        "tests": ["pytest", "scipy", "torch"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering",
        "License :: OSI Approved :: GNU General Public License (GPL)",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
    ],
)
