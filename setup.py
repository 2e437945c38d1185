"""Install the approom auth package."""

from setuptools import setup, find_packages

setup(
    name='approom-auth',
    version='0.1.0',
    packages=find_packages(include=['approom_auth', 'approom_auth.*'],
                           exclude=['*tests*']),
    install_requires=[
        "bcrypt",
        "email-validator",
        "flask",
        "flask-sqlalchemy",
        "pyjwt",
        "python-dateutil",
        "pytz",
        "retry",
        "sqlalchemy",
        "werkzeug",
        "wtforms",
    ],
    extras_require={
        'test': [
            "hypothesis",
            "mimesis",
            "pytest",
        ]
    },
    zip_safe=False
)
