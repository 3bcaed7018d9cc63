class AkariError(Exception):
    def __init__(self, msg):
        self.msg = msg
        super().__init__(self.msg)


class NotFound(AkariError):
    pass


class EnvironmentNotFound(NotFound):
    def __init__(self, name):
        self.name = name
        super().__init__(f"No environment named '{name}' is registered.")


class UnknownTag(NotFound):
    def __init__(self, tag, detail=None):
        self.tag = tag
        msg = f"Unknown tag '{tag}'."
        if detail:
            msg += f" {detail}"
        super().__init__(msg)


class UnknownReference(NotFound):
    def __init__(self, reference):
        self.reference = reference
        super().__init__(f"'{reference}' does not name a snapshot in this history.")


class DuplicateName(AkariError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Environment '{name}' already exists.")


class TagAlreadyExists(AkariError):
    def __init__(self, tag, where="locally"):
        self.tag = tag
        super().__init__(
            f"Tag '{tag}' already exists {where}. Tags are write-once; choose a new name."
        )


class InvalidName(AkariError):
    pass


class InvalidTagName(AkariError):
    pass


class InvalidPath(AkariError):
    def __init__(self, path, reason="is not a directory"):
        self.path = path
        super().__init__(f"`{path}` {reason}.")


class AlreadyBound(AkariError):
    def __init__(self, name, url):
        self.name = name
        self.url = url
        super().__init__(
            f"Environment '{name}' already has a remote ({url}). "
            f"Detach it first with `akari envs remote rm {name}`."
        )


class NoRemoteBound(AkariError):
    def __init__(self, name):
        self.name = name
        super().__init__(
            f"Environment '{name}' has no remote. "
            f"Attach one with `akari envs remote add {name} URL`."
        )


class AmbiguousLatest(AkariError):
    def __init__(self, candidates):
        self.candidates = sorted(candidates)
        super().__init__(
            "Cannot resolve 'latest': tags "
            + ", ".join(f"'{c}'" for c in self.candidates)
            + " are equally close to the head of history. Check out one of them by name."
        )


class DivergentHistory(AkariError):
    pass


class RemoteUnreachable(AkariError):
    def __init__(self, url, err):
        self.url = url
        self.err = err
        super().__init__(f"Could not reach remote `{url}`.\nError message: {err}")


class AuthenticationFailed(AkariError):
    def __init__(self, url, err):
        self.url = url
        self.err = err
        super().__init__(
            f"Authentication to `{url}` failed. akari only authenticates through ssh-agent; "
            f"is it running with your key added?\nError message: {err}"
        )


class DirtyStateUnsupported(AkariError):
    def __init__(self, path, err):
        self.path = path
        self.err = err
        super().__init__(
            f"Could not capture the state of `{path}`."
            f"\nError message: {err}"
        )


class EnvironmentLocked(AkariError):
    def __init__(self, lock_path):
        self.lock_path = lock_path
        super().__init__(
            f"Another akari process is working on this environment (lock: `{lock_path}`)."
        )


class GitError(AkariError):
    def __init__(self, command, cwd, err):
        self.command = command
        self.cwd = cwd
        self.err = err
        super().__init__(
            f"git command failed!"
            f"\nRan command: `{' '.join(command)}`"
            f"\ncwd: `{cwd}`"
            f"\nError message: {err}"
        )
