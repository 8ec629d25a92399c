#!/usr/bin/env python
# fmt: off

import os
from pathlib import Path

from setuptools import find_namespace_packages, setup


project_dir = Path(__file__).absolute().parent
os.chdir(project_dir)


namespace = "ffdmodel"

long_description = Path("README.md").read_text()

packages = find_namespace_packages(where="src", include=[namespace, namespace + ".*"])
package_dir={"": "src"}

install_requires = [
    "dacite",
    "numpy",
    "pyyaml",
    "torch>=1.9",
]

extras_require = {
    "dev": [
        "black",
        "flake8",
        "flake8-black",
        "pytest",
    ],
}
extras_require["all"] = extras_require["dev"]


setup(
    name="ffdmodel",
    version="0.1.0",
    description="Cubic B-spline free-form deformation models of 3D space for PyTorch.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Scientific/Engineering :: Image Processing",
        "Typing :: Typed",
    ],
    packages=packages,
    package_dir=package_dir,
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "ffdmodel-warp-points=ffdmodel.tools.warp_points:console_script",
        ],
    },
)
