"""
Setup script for GitHub Stars Notify.
"""

from setuptools import find_packages, setup

with open("README.md", encoding="utf-8") as fh:
    long_description = fh.read()

test_requires = [
    "pytest>=7.0.0",
    "pytest-asyncio>=0.21.0",
    "pytest-cov>=4.0.0",
]

setup(
    name="github-stars-notify",
    version="1.0.0",
    author="GitHub Stars Notify",
    author_email="support@example.com",
    description="Discord and Slack notifications for new GitHub stargazers",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/your-org/github-stars-notify",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Monitoring",
    ],
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn[standard]>=0.29.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "httpx>=0.24.0",
        "structlog>=23.0.0",
        "python-dotenv>=1.0.0",
        "PyYAML>=6.0",
        "watchdog>=3.0.0",
        "prometheus-client>=0.17.0",
        "tenacity>=8.2.3",
    ],
    extras_require={
        "test": test_requires,
        "dev": test_requires
        + [
            "black>=23.0.0",
            "ruff>=0.1.0",
            "pre-commit>=3.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "stars-notify=stars_notify.standalone:main",
        ],
    },
)
