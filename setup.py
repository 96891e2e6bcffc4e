#!/usr/bin/env python3

from setuptools import setup, find_packages
import os

def read_readme():
    if os.path.exists('README.md'):
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    return "DNS Routing-Policy Tester"

def read_requirements():
    if os.path.exists('requirements.txt'):
        with open('requirements.txt', 'r') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    return [
        'twisted>=18.0.0',
        'pyopenssl>=18.0.0',
        'service-identity>=18.1.0',
        'prometheus_client>=0.9.0',
        'requests[socks]>=2.25.0',
    ]

setup(
    name='dns-policy-tester',
    version='1.0.0',
    description='DNS routing-policy tester (weighted, geolocation, latency, failover, IP-based, multivalue)',
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    author='DNS Policy Tester Team',
    author_email='admin@example.com',
    url='https://github.com/example/dns-policy-tester',

    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,

    install_requires=read_requirements(),
    extras_require={
        'test': ['pytest>=7.0'],
    },

    entry_points={
        'console_scripts': [
            'dns-policy-test=dns_policy_tester.main:main',
        ],
    },

    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Topic :: Internet :: Name Service (DNS)',
        'Topic :: System :: Networking',
        'Topic :: Software Development :: Testing',
    ],

    python_requires='>=3.9',
)
