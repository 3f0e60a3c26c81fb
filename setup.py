"""Setup script for aws-log-tail"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="aws-log-tail",
    version="0.1.0",
    author="aws-log-tail",
    author_email="admin@localhost.local",
    description="Merge and tail CloudWatch log streams of many EC2 instances",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Logging",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.8",
    install_requires=[
        "click>=8.0",
        "boto3>=1.26",
        "botocore>=1.29",
        "pyyaml>=6.0",
        "tabulate>=0.9",
        "python-dateutil>=2.8",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "aws-log-tail=aws_log_tail.cli:cli",
            "awslogtail=aws_log_tail.cli:cli",  # Short alias
        ],
    },
)
