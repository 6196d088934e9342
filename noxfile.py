import nox.sessions

# Nox
nox.options.reuse_existing_virtualenvs = True
nox.options.sessions = [
    'tests',
    'tests_sqlalchemy',
]

# Versions
PYTHON_VERSIONS = ['3.9', '3.10', '3.11', '3.12']
SQLALCHEMY_VERSIONS = [
    # Selective: major releases
    # NOTE: keep major versions with breaking changes. Skip versions with minor bugfix changes.
    *(f'2.0.{x}' for x in (0, 10, 20, 30)),
]


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.sessions.Session, *, overrides: dict[str, str] = {}):
    """ Run all tests """
    session.install('-e', '.[test]')

    if overrides:
        session.install(*(f'{name}=={version}' for name, version in overrides.items()))

    # Test
    args = []
    if not overrides:
        args.append('--cov=entityql')

    session.run('pytest', 'tests/', *args)


@nox.session(python=PYTHON_VERSIONS[-1])
@nox.parametrize('sqlalchemy', SQLALCHEMY_VERSIONS)
def tests_sqlalchemy(session: nox.sessions.Session, sqlalchemy):
    """ Test against a specific SqlAlchemy version """
    tests(session, overrides={'sqlalchemy': sqlalchemy})
