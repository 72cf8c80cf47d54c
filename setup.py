"""Setup configuration for pipeline_metrics"""

from setuptools import setup, find_packages

setup(
    name="content-pipeline-metrics",
    version="0.1.0",
    description=(
        "Content pipeline metrics aggregated from Linear workspaces: status "
        "counts, author leaderboards, monthly growth, upcoming and overdue content."
    ),
    author="Content Pipeline Metrics Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "content-pipeline-metrics=pipeline_metrics.main:main",
        ],
    },
)
