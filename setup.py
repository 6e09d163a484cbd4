from setuptools import setup

setup(
    name='scansession',
    version='0.0.1',
    description='Session management and command dispatch for barcode scanners reached through a device layer.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['scansession', 'scansession.config', 'scansession.protocol', 'scansession.support'],
    package_data={'scansession.config': ['*.cfg']},
    install_requires=['configobj>=5.0.6'],
    extras_require={
        'test': ['pytest', 'PyHamcrest>=2.0', 'timeout-decorator'],
    },
    zip_safe=False,
)
