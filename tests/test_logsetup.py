from logsetup import mask_secrets


def test_masks_bearer_tokens_and_client_secrets():
    record = {"message": "headers={'Authorization': 'Bearer abc.def-123'} client_secret=hunter2&x=1"}

    assert mask_secrets(record) is True
    assert "abc.def-123" not in record["message"]
    assert "hunter2" not in record["message"]
    assert "Bearer ********" in record["message"]
