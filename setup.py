from setuptools import setup, find_packages

package_name = 'drive_guidance'


setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    package_data={'': ['*.yaml']},
    data_files=[
        ('share/' + package_name + '/config', ['config/guidance_params.yaml']),
        ('share/' + package_name + '/scripts', ['scripts/verify_guidance.py']),
    ],
    install_requires=['setuptools', 'numpy', 'pyyaml'],
    extras_require={'test': ['pytest']},
    python_requires='>=3.8',
    zip_safe=True,
    maintainer='AIMS Lab',
    maintainer_email='aims@example.com',
    description='Adaptive observation / field-pose drive guidance overlays',
    license='MIT',
    tests_require=['pytest'],
)
