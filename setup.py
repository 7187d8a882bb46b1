from setuptools import setup, find_packages

setup(
    name="hourly-direction",
    version="1.0.0",
    packages=find_packages(include=["hourly_direction", "hourly_direction.*"]),
    py_modules=["run_direction_monitor"],
    install_requires=[
        "pandas",
        "numpy",
        "requests",
        "urllib3",
        "aiohttp",
        "websockets",
        "python-dotenv",
        "pytz",
        "rich",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
