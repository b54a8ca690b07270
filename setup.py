# Always prefer setuptools over distutils
from setuptools import setup

setup(
	name='convergeit',
	version='0.3.0',
	description='A declarative convergence engine for hosts',
	long_description='Declare the packages, files and services a host should have; ConvergeIt orders them by their dependencies and converges the host onto them over a pexpect shell session.',
	author='ConvergeIt developers',
	license='MIT',
	keywords='configuration management pexpect convergence idempotent',
	packages=['convergeit'],
	python_requires='>=3.6',
	install_requires=['pexpect>=4.0','jinja2>=2.10','texttable>=1.0'],
	extras_require={
		'dev': [],
		'test': ['pytest'],
	},
	package_data={},
	data_files=[],
	entry_points={
		'console_scripts': [
			'convergeit=convergeit.convergeit_main:main',
		],
	},
)
