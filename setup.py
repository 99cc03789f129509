"""Setup script for ReminderBot."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements, separating test dependencies
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    content = requirements_file.read_text().strip()
    lines = content.split("\n")

    for line in lines:
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        if "pytest" in line:
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="reminderbot",
    version="1.0.0",
    description="Syncs recurring CalDAV events and posts reminders into Matrix rooms",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="ReminderBot Team",
    author_email="support@reminderbot.local",
    # Package configuration
    packages=find_packages(include=["reminderbot", "reminderbot.*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "test": dev_requirements,
        "dev": dev_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Topic :: Office/Business :: Scheduling",
        "Topic :: Communications :: Chat",
        "Framework :: AsyncIO",
    ],
    keywords="calendar caldav icalendar rrule matrix reminders async",
    entry_points={
        "console_scripts": [
            "reminderbot=reminderbot.__main__:main",
        ],
    },
    zip_safe=False,
)
