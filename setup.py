from pathlib import Path

from setuptools import setup

install_requires = [
    "trio>=0.23",
    "multidict>=6.0",
]

setup(
    name='discord-ipc',
    version='0.1.0',
    packages=['discord_ipc'],
    license='LGPLv3',
    description='A trio client for the Discord desktop IPC socket, for Rich Presence',
    long_description=Path(__file__).with_name("README.rst").read_text(encoding="utf-8"),
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3 :: Only",
        "Framework :: Trio",
        "Development Status :: 4 - Beta"
    ],
    install_requires=install_requires,
    extras_require={
        "test": [
            "pytest>=7",
            "pytest-trio>=0.8",
        ],
        "docs": [
            "sphinx",
            "sphinx-autodoc-typehints",
        ]
    },
)
