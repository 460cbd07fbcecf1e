from setuptools import setup, find_packages

setup(
    name="FoodChain",
    version="0.1",
    packages=find_packages(),
    description="Grass-sheep-wolf trophic gridworld with seasons, sexual reproduction and population analysis.",
    author="P. van Doesburg",
    author_email="petervandoesburg11@gmail.com",
    url="https://github.com/doesburg11/predpreygrass",
    install_requires=[
        "numpy",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
