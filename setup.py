from setuptools import setup, find_packages

setup(
    name="longscribe",
    version="0.1.0",
    description="Transcription of long recordings across interchangeable speech backends",
    author="",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "google-cloud-speech>=2.16.0",
        "google-cloud-storage>=2.5.0",
        "google-auth>=2.10.0",
        "rich>=12.5.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "ondevice": [
            "faster-whisper>=1.0.0",
            "ctranslate2>=4.0.0",
            "torch>=2.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "numpy>=1.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "longscribe=longscribe.main:main",
        ],
    },
)
