from setuptools import setup, find_packages


setup(
    name="ue4pak",
    version="0.1",
    packages=find_packages(include=["ue4pak", "ue4pak.*"]),
    description="Read, verify, unpack and create Unreal Engine 4 .pak archives.",
    python_requires=">=3.8",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "ue4pak=ue4pak.cli:main",
        ]
    },
)
