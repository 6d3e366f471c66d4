import threading
import time

from mems3.storage.lock import RWLock


def test_readers_share() -> None:
    lock = RWLock()
    inside = threading.Barrier(2, timeout=5)

    def reader() -> None:
        with lock.read():
            # both readers must be inside at once to pass the barrier
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    assert not inside.broken


def test_writer_excludes_readers() -> None:
    lock = RWLock()
    events: list[str] = []
    writer_in = threading.Event()

    def writer() -> None:
        with lock.write():
            writer_in.set()
            time.sleep(0.05)
            events.append("writer done")

    def reader() -> None:
        writer_in.wait(timeout=5)
        with lock.read():
            events.append("reader")

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    assert events == ["writer done", "reader"]


def test_lock_is_released_on_error() -> None:
    lock = RWLock()
    try:
        with lock.write():
            raise ValueError
    except ValueError:
        pass
    with lock.read():
        pass
    with lock.write():
        pass
