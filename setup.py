from setuptools import find_packages, setup

VERSION = "1.0.0"


def readme():
	with open("README.md", "r", encoding="utf-8") as fh:
		return fh.read()


setup(
	name="fs-serve",
	version=VERSION,
	description="A static file server with extension fallback, directory listings and server-side includes",
	long_description=readme(),
	long_description_content_type="text/markdown",
	packages=find_packages(where="src/py"),
	package_dir={"": "src/py"},
	classifiers=[
		"Development Status :: 4 - Beta",
		"Intended Audience :: Developers",
		"License :: OSI Approved :: MIT License",
		"Operating System :: OS Independent",
		"Programming Language :: Python :: 3",
		"Programming Language :: Python :: 3.11",
		"Programming Language :: Python :: 3.12",
		"Topic :: Internet :: WWW/HTTP :: HTTP Servers",
	],
	python_requires=">=3.11",
	install_requires=[
		"mypy-extensions",
		"certifi",
	],
	extras_require={
		"dev": [
			"mypy",
			"flake8",
			"bandit",
		],
		"test": [
			"pytest",
		],
	},
	entry_points={
		"console_scripts": [
			"fs-serve=fsserve.__main__:main",
		],
	},
	include_package_data=True,
	zip_safe=False,
)
