"""Setup configuration for exporter"""

from setuptools import setup, find_packages

setup(
    name="github-metrics-exporter",
    version="0.1.0",
    description=(
        "Prometheus exporter for GitHub issue and pull request activity: "
        "label staleness, review states and community vs. team throughput."
    ),
    author="GitHub Metrics Exporter Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
        "prometheus-client>=0.17.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "github-exporter=exporter.main:main",
            "github-exporter-labelsync=exporter.main:labelsync_main",
        ],
    },
)
