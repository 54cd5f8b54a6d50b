from setuptools import setup, find_packages
import os

# Read requirements.txt
requirements_file = 'requirements.txt'
install_requires = []
if os.path.exists(requirements_file):
    with open(requirements_file, 'r') as f:
        install_requires = [line.strip() for line in f if line.strip() and not line.startswith('#')]

setup(
    name="token-admission-bundle",
    version="0.1.0",
    packages=find_packages(include=['token_admission_bundle', 'token_admission_bundle.*']),
    install_requires=install_requires,
    extras_require={
        'test': ['pytest>=7'],
    },
    author="Effie Choupette",
    author_email="effie_choupette@outlook.com",
    description="Token identity resolution and admission service for the project rating dashboard",
    long_description=open('README.md').read() if os.path.exists('README.md') else '',
    long_description_content_type="text/markdown",
    python_requires=">=3.9",
    package_data={
        'token_admission_bundle': ['*.yaml', '*.txt'],
    },
    include_package_data=True,
    entry_points={
        'console_scripts': [
            'token-admission=token_admission_bundle.admission.__main__:main',
        ],
    },
)
