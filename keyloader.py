import logging
import os
from pathlib import Path
from typing import Optional, Union

from key_codec import decode_key_pair
from pack_errors import KeyLoadError, MalformedKey
from pack_types import Context, KeyPair
from packing import variant_for


log = logging.getLogger(__name__)

PUBLIC_KEY_FILE = "public.upspinkey"
SECRET_KEY_FILE = "secret.upspinkey"
KEYDIR_ENV = "EEPACK_KEYDIR"


def default_key_dir() -> Path:
    env = os.environ.get(KEYDIR_ENV)
    if env:
        return Path(env)
    return Path.home() / ".ssh"


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="ascii")
    except (OSError, UnicodeDecodeError) as err:
        raise KeyLoadError(f"cannot read {path} ({type(err).__name__})") from err


def load(ctx: Context, directory: Optional[Union[str, Path]] = None) -> KeyPair:
    """
    Fill ctx.key_pair from the user's key directory.

    public.upspinkey holds "x\\ny", secret.upspinkey holds "d"; trailing
    newlines are tolerated. The pair is checked against ctx.packing here, so a
    bad key file is reported before any packer runs.
    """
    key_dir = Path(directory) if directory is not None else default_key_dir()
    pair = KeyPair(
        public=_read(key_dir / PUBLIC_KEY_FILE).strip(),
        private=_read(key_dir / SECRET_KEY_FILE).strip(),
    )
    try:
        decode_key_pair(variant_for(ctx.packing), pair)
    except MalformedKey as err:
        raise KeyLoadError(f"keys in {key_dir} are not usable: {err}") from err
    ctx.key_pair = pair
    log.debug("loaded %s keys for %s from %s", ctx.packing.value, ctx.user_name, key_dir)
    return pair


def save(pair: KeyPair, directory: Union[str, Path]) -> None:
    key_dir = Path(directory)
    key_dir.mkdir(parents=True, exist_ok=True)
    (key_dir / PUBLIC_KEY_FILE).write_text(pair.public + "\n", encoding="ascii")
    secret = key_dir / SECRET_KEY_FILE
    # create with owner-only permissions before the secret goes in
    fd = os.open(secret, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="ascii") as fh:
        fh.write(pair.private + "\n")
