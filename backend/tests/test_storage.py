from kudumbam.client.storage import EncryptedFileStorage, MemoryStorage, open_storage


def test_session_round_trip_through_encrypted_file(tmp_path):
    path = tmp_path / "client" / "storage.bin"
    storage = EncryptedFileStorage(path, secret="s3cret")
    storage.save_session("session-token-value", {"id": 3, "email": "x@y.com"})

    assert "session-token-value" not in path.read_text()
    reopened = EncryptedFileStorage(path, secret="s3cret")
    assert reopened.session_token == "session-token-value"
    assert reopened.user_data["email"] == "x@y.com"


def test_wrong_secret_or_garbage_starts_empty(tmp_path):
    path = tmp_path / "storage.bin"
    EncryptedFileStorage(path, secret="one").set("k", "v")

    assert EncryptedFileStorage(path, secret="two").snapshot() == {}

    path.write_text("not-a-fernet-token")
    assert EncryptedFileStorage(path, secret="one").snapshot() == {}


def test_clear_session_leaves_admin_session():
    storage = MemoryStorage()
    storage.save_session("user", {"id": 1})
    storage.save_admin_session("admin", {"id": 1})

    storage.clear_session()

    assert storage.session_token is None
    assert storage.admin_session_token == "admin"


def test_open_storage_picks_backend(tmp_path):
    assert isinstance(open_storage(""), MemoryStorage)
    assert isinstance(open_storage(str(tmp_path / "s.bin")), EncryptedFileStorage)
