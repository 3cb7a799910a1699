from setuptools import setup, find_namespace_packages

setup(
    name='stagehand',
    version='0.1',
    description="""Stage files for deploys: targets, roles and settings.""",
    url='http://github.com/royprojectcom/stagehand',
    author='Morty Space',
    author_email='morty.space@gmail.com',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: Implementation :: CPython',
        'Topic :: System :: Installation/Setup',
        'Topic :: Software Development :: Libraries :: Python Modules'
    ],
    package_dir={'': 'src'},
    packages=find_namespace_packages('src', include=['stagehand*']),
    package_data={'stagehand.deploy': ['templates/*']},
    include_package_data=True,
    install_requires=[
        'cerberus>=1.3',
        'jinja2',
        'watchgod'
    ],
    extras_require={
        'dev': [
            'pylint',
            'pycodestyle',
            'pytest',
            'pytest-cov',
            'pytest-env',
            'autopep8',
            'twine',
            'setuptools',
            'wheel'
        ]
    },
    zip_safe=False,
    entry_points={
        'console_scripts': [
            'stagehand = stagehand.deploy.bin:run'
        ]
    }
)
