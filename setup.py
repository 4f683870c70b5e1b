from setuptools import setup

setup(
    name="adb-insight",
    version="1.0",
    py_modules=[
        "main",
        "server",
        "config",
        "errors",
        "device_channel",
        "device_monitor",
        "name_resolver",
        "batch_scheduler",
        "snapshot_parser",
        "telemetry_store",
        "session_manager",
    ],
    python_requires=">=3.9",
    install_requires=[
        "fastapi",
        "uvicorn",
        "rich",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "adb-insight=main:main",
        ],
    },
)
