from setuptools import setup, find_packages

setup(
    name="yaru",
    version="1.0.0",
    description="Single-user task manager backed by a local Unix socket daemon",
    license="MIT",
    packages=find_packages(include=["yaru", "yaru.*"]),
    install_requires=[
        "typer>=0.9.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "yaru=yaru.main:yaru",
        ],
    },
    python_requires=">=3.10",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
