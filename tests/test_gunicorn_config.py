import gunicorn_config


def test_workers_run_uvicorn_with_their_own_event_loop():
    assert gunicorn_config.worker_class == "uvicorn.workers.UvicornWorker"
    assert gunicorn_config.preload_app is False
    assert 1 <= gunicorn_config.workers <= 2


def test_only_settings_the_service_uses_are_set():
    for name in ("worker_tmp_dir", "tmp_upload_dir", "umask", "daemon", "pidfile", "keyfile", "certfile"):
        assert not hasattr(gunicorn_config, name)
