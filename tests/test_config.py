import pytest

from mqhttp import config


def test_defaults():

    settings = config.Config.from_environ({})

    assert settings.broker_url == config.default_broker_url
    assert settings.subject == 'http.request'
    assert settings.timeout == 5.0
    assert settings.workers == 8


def test_environment():

    environ = dict()
    environ['MQHTTP_BROKER_URL'] = 'amqp://broker.example.test:5673/'
    environ['MQHTTP_SUBJECT'] = 'web.fetch'
    environ['MQHTTP_TIMEOUT'] = '0.25'
    environ['MQHTTP_WORKERS'] = '3'

    settings = config.Config.from_environ(environ)

    assert settings.broker_url == 'amqp://broker.example.test:5673/'
    assert settings.subject == 'web.fetch'
    assert settings.timeout == 0.25
    assert settings.workers == 3


def test_empty_values_mean_default():

    settings = config.Config.from_environ({'MQHTTP_TIMEOUT': '', 'MQHTTP_WORKERS': ''})

    assert settings.timeout == config.default_timeout
    assert settings.workers == config.default_workers


def test_invalid():

    for environ in (
            {'MQHTTP_TIMEOUT': 'soon'},
            {'MQHTTP_TIMEOUT': '0'},
            {'MQHTTP_TIMEOUT': '-1'},
            {'MQHTTP_WORKERS': '0'},
            {'MQHTTP_WORKERS': 'many'},
            {'MQHTTP_SUBJECT': ''}):

        with pytest.raises(ValueError):
            config.Config.from_environ(environ)


def test_invalid_names_the_variable():

    with pytest.raises(ValueError, match='MQHTTP_TIMEOUT'):
        config.Config.from_environ({'MQHTTP_TIMEOUT': 'soon'})

    with pytest.raises(ValueError, match='MQHTTP_WORKERS'):
        config.Config.from_environ({'MQHTTP_WORKERS': 'many'})


def test_process_environment(monkeypatch):

    monkeypatch.setenv('MQHTTP_SUBJECT', 'from.the.environment')
    assert config.Config.from_environ().subject == 'from.the.environment'


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
