from setuptools import find_packages, setup

setup(
    name="romupload",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9",
    install_requires=[
        "requests",
        "PyYAML",
        "urllib3",
        "platformdirs",
        "rich",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "romupload=romupload.cli:main",
        ],
    },
    # Include other metadata as needed
)
