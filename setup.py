from setuptools import setup, find_packages

# Read requirements
with open("requirements/base.txt") as f:
    base_requirements = [line for line in f.read().splitlines() if line and not line.startswith("#")]

setup(
    name="behavior-driven-ui",
    version="0.1.0",
    author="behavior-driven-ui Contributors",
    description="behave step library, world runtime and runner for browser UI tests",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.11",
    install_requires=base_requirements,
    extras_require={
        "dev": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "bdui=behavior_driven_ui.cli:main",
        ],
    },
)
