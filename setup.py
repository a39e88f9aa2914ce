from setuptools import setup, find_packages

# Read the contents of your README file
with open('README.md', encoding='utf-8') as f:
    long_description = f.read()

# Read the contents of the requirements file
with open('requirements.txt') as f:
    requirements = [line for line in f.read().splitlines() if line and not line.startswith('#')]

setup(
    name='sogcodec',
    version='0.3',
    author='Francesco Fugazzi',
    description='SOG (WebP bundle) codec for 3D Gaussian Splatting',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=requirements,
    extras_require={
        'gpu': ['taichi'],
        'test': ['pytest'],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.9',
    entry_points={
        'console_scripts': [
            'sogcodec=sogcodec.main:main',
        ],
    },  
)
