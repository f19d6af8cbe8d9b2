"""Set-up file for ChemField for installations usins ``pip install .``"""
from setuptools import find_packages, setup


with open("requirements.txt") as f:
    required = f.read().splitlines()


setup(
    name="chemfield",
    version="0.3.0",
    license="GPL",
    keywords=["chemical equilibrium kinetics reactive transport geochemistry"],
    install_requires=required,
    extras_require={"testing": ["pytest"]},
    description=(
        "Chemical equilibrium and kinetics on fields of points for reactive transport"
    ),
    platforms=["Linux", "Windows", "Mac OS-X"],
    package_data={
        "chemfield": ["py.typed"],
    },
    packages=find_packages("src"),
    package_dir={"": "src"},
    zip_safe=False,
)
