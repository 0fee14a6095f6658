from setuptools import setup

package_name = 'multibody'

setup(
    name=package_name,
    version='0.1.0',
    packages=[package_name],
    package_dir={package_name: 'src'},
    python_requires='>=3.8',
    install_requires=['numpy', 'scipy', 'pymlg'],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=True,
    maintainer='root',
    maintainer_email='franche1984@gmail.com',
    description='Articulated rigid-body kinematics and dynamics with lazily cached state',
    license='MIT',
)
