"""Set up the gitgate package."""
import json
from pathlib import Path

from setuptools import find_packages, setup

DESCRIPTION = (
    "A self-hosted bare repository viewer and Git LFS gateway"
    " issuing presigned object store URLs."
)

REQUIREMENTS = [
    "aiobotocore>=2.1.0",
    "dulwich>=0.21.0",
    "fastapi>=0.100.0",
    "httpx>=0.21.1",
    "pydantic>=2.6.1",
    "typing-extensions>=3.7.4.3",  # required by pydantic
    "python-dotenv>=0.19.0",
    "python-jose>=3.3.0",
    "shortuuid>=1.0.1",
    "uvicorn>=0.23.2",
]

ROOT_DIR = Path(__file__).parent.resolve()
README_FILE = ROOT_DIR / "README.md"
LONG_DESCRIPTION = README_FILE.read_text(encoding="utf-8")
VERSION_FILE = ROOT_DIR / "gitgate" / "VERSION"
VERSION = json.loads(VERSION_FILE.read_text(encoding="utf-8"))["version"]


setup(
    name="gitgate",
    version=VERSION,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(include=["gitgate", "gitgate.*"]),
    python_requires=">=3.9",
    include_package_data=True,
    package_data={"gitgate": ["VERSION"]},
    install_requires=REQUIREMENTS,
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    zip_safe=False,
    entry_points={"console_scripts": ["gitgate = gitgate.__main__:main"]},
)
