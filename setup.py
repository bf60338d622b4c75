"""Setup configuration for the ScanGuard Discord bot."""

from setuptools import setup, find_packages

setup(
    name="scanguard",
    version="0.1.0",
    description="A Discord bot that screens posted images and escalates repeat offenders",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "aiosqlite>=0.20",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "requests>=2.31",
        "Pillow>=10.0",
        "pillow-heif>=0.16",
        "ImageHash>=4.3",
        "jsonschema>=4.21",
    ],
    extras_require={
        "test": [
            "pytest>=8.0,<9",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "scanguard=scanguard.main:main",
        ],
    },
)
