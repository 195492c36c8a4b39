"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/dubsense/dubsense"
KEYWORDS = "dlang dub compiler diagnostics import-paths editor language-server check-build"
HERE = os.path.dirname(os.path.abspath(__file__))

with open(os.path.join(HERE, "src", "dubsense", "__init__.py"), encoding="utf-8") as f:
    VERSION = next(line.split('"')[1] for line in f if line.startswith("__version__"))


if __name__ == "__main__":
    setup(
        name="dubsense",
        version=VERSION,
        description="Check builds, compiler diagnostics and import paths for dub projects",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.10",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=["psutil"],
        extras_require={"test": ["pytest"]},
        entry_points={"console_scripts": ["dubsense=dubsense.cli:main"]},
        include_package_data=True,
    )
