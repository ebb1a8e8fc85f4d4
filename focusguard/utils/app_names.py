"""App-name keys for the JSON usage maps.

Raw application names ("Code.exe", "$Recycle.Bin") are not used directly as
map keys: dots become underscores and a leading dollar sign is escaped. The
substitution is reversed for display.

Note that names which already contain underscores do not survive the round
trip unchanged ("my_app.exe" comes back as "my.app.exe").
"""


def sanitize_app_name(app_name: str) -> str:
    key = app_name.replace(".", "_")
    if key.startswith("$"):
        key = "_" + key
    return key


def restore_app_name(key: str) -> str:
    prefix = ""
    if key.startswith("_$"):
        prefix, key = "$", key[2:]
    return prefix + key.replace("_", ".")
