from setuptools import setup, find_packages

# Version information
version = '0.1.0'

# Read long description from README
with open('README.md', 'r', encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='codeflow-authenticator',
    version=version,
    description='A client-side 2FA vault: TOTP codes with password-encrypted secrets',
    long_description=long_description,
    long_description_content_type='text/markdown',
    author='CodeFlow Team',
    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    python_requires='>=3.8',
    install_requires=[
        'cryptography>=41.0.0',
        'pyzbar>=0.1.9',
        'pillow>=10.0.0',
        'pyotp>=2.8.0',
        'qrcode>=7.4.2',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Topic :: Security',
        'Topic :: Security :: Cryptography',
    ],
    entry_points={
        'console_scripts': [
            'codeflow=codeflow.main:main',
        ],
    },
)
