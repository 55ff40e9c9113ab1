from setuptools import setup, find_packages

# Read requirements
with open('repo_audit/requirements.txt') as f:
    requirements = [line for line in f.read().splitlines() if line and not line.startswith('#')]

setup(
    name="repo-audit",
    version="1.0.0",
    description="Third-party license compliance checks for Maven, Gradle and npm repositories",
    author="Your Organization",
    author_email="contact@example.com",
    url="https://github.com/yourusername/repo-audit",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    package_data={
        'repo_audit': ['policy/*.json', 'requirements.txt'],
    },
    install_requires=requirements,
    extras_require={
        'test': [
            'pytest>=7.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'repo-audit=cli.main:main',
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Topic :: Software Development :: Quality Assurance",
        "Topic :: Software Development :: Build Tools",
    ],
    python_requires=">=3.10",
)
