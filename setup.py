from pathlib import Path
from setuptools import setup, find_packages


BASE_DIR = Path(__file__).parent
with open(BASE_DIR / "src" / "dcmframes" / "_version.py") as f:
    exec(f.read())

with open(BASE_DIR / 'README.md') as f:
    long_description = f.read()


setup(
    name="dcmframes",
    version=__version__,  # noqa: F821
    author="pydicom contributors",
    description="Frame by frame reading and rendering of DICOM pixel data",
    long_description=long_description,
    long_description_content_type='text/markdown',
    license="MIT",
    keywords="dicom python medical imaging pixel data frames",
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Intended Audience :: Developers",
        "Intended Audience :: Healthcare Industry",
        "Intended Audience :: Science/Research",
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
        "Topic :: Software Development :: Libraries"
    ],
    package_dir={"": "src"},
    packages=find_packages("src"),
    zip_safe=False,
    python_requires='>=3.10',
    install_requires=[
        "pydicom>=3.0",
        "numpy",
    ],
    extras_require={
        "pylibjpeg": [
            "pylibjpeg>=2.0",
            "pylibjpeg-libjpeg>=2.1",
            "pylibjpeg-openjpeg>=2.0",
        ],
        "pyjpegls": ["pyjpegls>=1.2"],
        "pillow": ["pillow>=10.3"],
        "tests": [
            "pytest",
        ],
    },
)
