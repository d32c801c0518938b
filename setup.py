#!/usr/bin/env python

import setuptools

install_requires = [
    'numpy>=1.20.0',
    'nibabel>=3.2.0',
    'scipy>=1.9.0,<2.0.0',
    'joblib>=1.3.0',
    'tqdm>=4.62.0',
    'psutil>=5.8.0'
]

setuptools.setup(
    name='fixelcorr',
    version='0.3.0',
    description='Fixel correspondence between fixel datasets and projection of fixel data through it',
    license='BSD (3-Clause)',
    packages=setuptools.find_packages(exclude=("tests*",)),
    install_requires=install_requires,
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.9',
    entry_points={
        'console_scripts': ['fixelcorr=fixelcorr.master_cli:main'],
    },
    include_package_data=True,
    zip_safe=False,
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: BSD License',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Topic :: Scientific/Engineering :: Medical Science Apps.',
    ],
)
