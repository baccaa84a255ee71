"""Setup configuration for teamcity_exporter"""

from setuptools import setup, find_packages

setup(
    name="teamcity-queue-exporter",
    version="0.1.0",
    description=(
        "Prometheus exporter for TeamCity: build queue wait reasons per project "
        "and pool, and agent fleet composition."
    ),
    author="TeamCity Queue Exporter Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
        "prometheus-client>=0.16.0",
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
            "teamcity-queue-exporter=teamcity_exporter.main:main",
        ],
    },
)
