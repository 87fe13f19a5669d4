from setuptools import setup


setup(
    name="feedlog",
    version="0.1.0",
    description="Local import tools for feeding and pumping logs exported from spreadsheets and trackers",
    packages=["feedlog", "feedlog.parsers"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
    },
    entry_points={
        "console_scripts": [
            "feedlog=feedlog.cli:main",
        ]
    },
)
