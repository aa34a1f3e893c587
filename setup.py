#!/usr/bin/env python
"""ortep-cif: crystal structures from CIF files

Parser for Crystallographic Information Files and a crystal structure
model with displacement parameters, bonds, hydrogen bonds and symmetry,
plus modifiers preparing structures for ORTEP style display.
"""

import re
from setuptools import setup, find_packages


license = 'MIT'

keywords = (
    'cif, crystallography, crystal, structure, ortep, adp, '
    'displacement, ellipsoid, symmetry, parser'
)

classifiers = [
    'Development Status :: 4 - Beta',
    'Intended Audience :: Science/Research',
    'License :: OSI Approved :: MIT License',
    'Natural Language :: English',
    'Operating System :: OS Independent',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Programming Language :: Python :: 3 :: Only',
    'Programming Language :: Python :: 3.8',
    'Programming Language :: Python :: 3.9',
    'Programming Language :: Python :: 3.10',
    'Programming Language :: Python :: 3.11',
    'Programming Language :: Python :: 3.12',
    'Topic :: Scientific/Engineering :: Chemistry',
]

with open(r'requirements.txt') as f:
    install_requires = [req.strip() for req in f.readlines() if req.strip()]

extras_require = {
    'dev': ['pytest'],
}

with open(r'src/ortepcif/__init__.py') as f:
    version = re.search(r'__version__ = ["\'](.*)["\']', f.read()).group(1)

kw = {
    'name': 'ortep-cif',
    'version': version,
    'description': 'CIF parser and crystal structure model for ORTEP style display.',
    'long_description': open('README.md').read(),
    'long_description_content_type': 'text/markdown',
    'license': license,
    'keywords': keywords,
    'classifiers': classifiers,
    'python_requires': '>=3.8',
    'install_requires': install_requires,
    'extras_require': extras_require,
    'package_dir': {'': 'src'},
    'packages': find_packages('src'),
    'package_data': {'ortepcif': ['*.json']},
    'include_package_data': True,
    'entry_points': {
        'console_scripts': [
            'ortep-cif-info = ortepcif.cli:main',
        ]
    }
}


if __name__ == '__main__':
    setup(**kw)
