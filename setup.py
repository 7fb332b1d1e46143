#
# Copyright 2020 University of Southern California
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

from setuptools import setup

url = "https://github.com/informatics-isi-edu/imagetools"
author = 'USC Information Sciences Institute, Informatics Systems Research Division'
author_email = 'isrd-support@isi.edu'

setup(
    name='tiletools',
    description='library for cutting images into tile pyramids',
    version='0.1.0',
    url=url,
    author=author,
    author_email=author_email,
    maintainer=author,
    maintainer_email=author_email,
    entry_points={
        'console_scripts': [
            'tile_image = tiletools.cli:main',
            'validate_tileset = tiletools.validate:main'
        ]
    },
    packages=['tiletools'],
    python_requires='>=3.9',
    install_requires=['pyvips',
                      'numpy',
                      'tifffile',
                      'imagecodecs',
                      'xmltodict'
                      ],
    extras_require={
        'test': ['pytest']
    },
    license='Apache 2.0',
    classifiers=[
        'Intended Audience :: Developers',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3',
        'Topic :: Multimedia :: Graphics :: Graphics Conversion',
        'Topic :: Software Development :: Libraries :: Python Modules'
    ]
)
