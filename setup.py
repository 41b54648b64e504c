#!/usr/bin/env python

import os
import re
from setuptools import setup


def load_readme():
    with open('README.rst', 'r') as fd:
        return fd.read()


def load_requirements():
    """Parse requirements.txt"""
    reqs_path = os.path.join('.', 'requirements.txt')
    with open(reqs_path, 'r') as fd:
        requirements = [line.rstrip() for line in fd if line.strip()]
    return requirements


package_name = 'syslogela'

with open(os.path.join(os.path.dirname(__file__), package_name, '__init__.py')) as f:
    version = re.search("__version__ = '([^']+)'", f.read()).group(1)


setup(name=package_name,
      version=version,
      description='Catalog-driven classification of syslog messages '
                  'into serviceable events',
      long_description=load_readme(),
      classifiers=[
          'Development Status :: 4 - Beta',
          'Environment :: Console',
          'Intended Audience :: System Administrators',
          "Intended Audience :: Developers",
          'License :: OSI Approved :: BSD License',
          "Operating System :: POSIX :: Linux",
          'Programming Language :: Python :: 3',
          'Topic :: System :: Logging',
          'Topic :: System :: Monitoring'],
      license='BSD 3-Clause "New" or "Revised" License',

      packages=['syslogela'],
      install_requires=load_requirements(),
      extras_require={
          'test': ['pytest'],
      },
      entry_points={
          'console_scripts': [
              'syslogela = syslogela.__main__:main',
              'explain_syslog = syslogela.__main__:explain',
              'syslog_to_svclog = syslogela.__main__:svclog',
              'add_regex = syslogela.__main__:add_regex',
          ],
      },
      test_suite="tests",
      )
