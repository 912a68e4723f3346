from setuptools import find_packages
from setuptools import setup

version = "0.1.0"

install_requires = [
    "acme>=2.0.0",
    "certbot>=2.0.0",
    "setuptools",
    "requests",
    "josepy>=1.13.0",
]

test_extras = [
    "mock",
    "requests-mock",
    "cryptography",
    "pytest",
]

docs_extras = [
    'Sphinx>=1.0',  # autodoc_member_order = 'bysource', autodoc_default_flags
    'sphinx_rtd_theme',
]

# read the contents of your README file
with open("README.rst") as f:
    long_description = f.read()

setup(
    name="certbot-plugin-gclouddns",
    version=version,
    description="Google Cloud DNS Authenticator plugin for Certbot",
    long_description=long_description,
    long_description_content_type="text/x-rst",
    license="Apache License 2.0",
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Plugins",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Security",
        "Topic :: System :: Installation/Setup",
        "Topic :: System :: Networking",
        "Topic :: System :: Systems Administration",
        "Topic :: Utilities",
    ],
    packages=find_packages(),
    include_package_data=True,
    keywords=['certbot', 'gcloud', 'clouddns',],
    install_requires=install_requires,
    extras_require={
        'docs': docs_extras,
        'test': test_extras,
    },
    entry_points={
        "certbot.plugins": [
            "gclouddns = certbot_plugin_gclouddns.gclouddns:Authenticator"
        ]
    },
)
