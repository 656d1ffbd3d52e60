from setuptools import setup


setup(
    name="cell-doctor",
    version="0.1.0",
    description="Local data-quality scanning and reversible fixes for spreadsheet ranges",
    packages=["cell_doctor", "cell_doctor.detectors"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "openpyxl",
    ],
    entry_points={
        "console_scripts": [
            "cell-doctor=cell_doctor.cli:main",
        ]
    },
)
