from setuptools import setup, find_packages

setup(
    name="progress-tracker",
    version="1.0.0",
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'firebase-admin>=6.2.0',
        'firebase-functions>=0.1.0',
        'Flask>=2.3.2',
        'Flask-CORS>=4.0.0',
        'requests>=2.31.0',
        'python-dotenv>=1.0.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-mock>=3.11.1',
        ],
    },
)
