from setuptools import setup, find_packages

setup(
    name='docsync',
    version='0.1.0',
    packages=find_packages(include=['docsync', 'docsync.*']),
    entry_points={
        'console_scripts': [
            'docsync=docsync.cli:main',
        ],
    },
    install_requires=[
        'python-dotenv',
        'pyyaml',
        'pydantic>=2',
        'requests',
        'click',
        'markdown',
        'boto3',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    author='While True Industries',
    author_email='adam@whiletrue.industries',
    description='Sync exported documents to an R2 bucket with local version history',
    python_requires='>=3.10',
)
