import setuptools

with open("README.md", "r") as f:
    long_description = f.read()
with open("requirements.txt", "r") as f:
    requirements = [line.strip() for line in f if line.strip()]

setuptools.setup(
    name="roof_layout",
    version="0.1.0",
    author="CSE",
    author_email="neil.justice@cse.org.uk",
    description="Roof PV panel layout model",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=["roof_layout", "roof_layout.*"]),
    package_data={"roof_layout": ["py.typed"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.8',
    install_requires=requirements,
    extras_require={"test": ["pytest"]},
)
