"""
Package installation and setup script for Feed Collector.
"""

from setuptools import setup, find_packages
import os

# Read the README file
readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
if os.path.exists(readme_path):
    with open(readme_path, 'r', encoding='utf-8') as f:
        long_description = f.read()
else:
    long_description = 'Feed Collector - concurrent RSS/Atom ingestion with deduplication and a digest page'

# Read requirements
requirements_path = os.path.join(os.path.dirname(__file__), 'requirements.txt')
if os.path.exists(requirements_path):
    with open(requirements_path, 'r', encoding='utf-8') as f:
        requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]
else:
    requirements = [
        'requests>=2.31.0',
        'feedparser>=6.0.10',
        'schedule>=1.2.0',
        'pytz>=2023.3',
        'python-dateutil>=2.8.2',
        'user_agent>=0.1.10',
        'python-dotenv>=1.0.0',
    ]

setup(
    name='feed-collector',
    version='1.0.0',
    description='Concurrent RSS/Atom feed ingestion into an embedded key-value store',
    long_description=long_description,
    long_description_content_type='text/markdown',
    author='Feed Collector Team',
    author_email='admin@feed-collector.local',

    # Package discovery
    packages=find_packages(exclude=['tests*']),
    include_package_data=True,

    # Dependencies
    install_requires=requirements,

    # Optional dependencies
    extras_require={
        'dev': [
            'pytest>=7.0.0',
            'pytest-cov>=4.0.0',
            'black>=23.0.0',
            'flake8>=5.0.0',
        ],
        'test': [
            'pytest>=7.0.0',
            'pytest-cov>=4.0.0',
            'responses>=0.23.0',
        ]
    },

    # Entry points
    entry_points={
        'console_scripts': [
            'feed-collector=feed_collector.main:main',
        ],
    },

    # Metadata
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Internet :: WWW/HTTP :: Dynamic Content :: News/Diary',
        'Topic :: Text Processing :: Markup :: XML',
    ],

    # Python version requirement
    python_requires='>=3.10',

    # Keywords
    keywords='rss atom feeds opml ingestion ollama digest',

    # Zip safe
    zip_safe=False,
)
