from setuptools import setup, find_packages

install_requires = [
    'numpy',
    'scipy',
    'matplotlib',
]

extras_require = {
    'all': [
        'requests',
        'xarray',
        'Pillow',
        'imageio',
    ],
    'tests': [
        'pytest',
        'requests',
        'xarray',
        'Pillow',
        'imageio',
    ],
}

setup(
    name='meteogrid',
    version='0.1.0',
    description='Adaptive viewport grids and animated weather overlays '
                'from sparse point measurements',
    packages=find_packages(exclude=['examples', 'examples.*']),
    python_requires='>=3.8',
    install_requires=install_requires,
    extras_require=extras_require,
)
