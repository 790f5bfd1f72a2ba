import asyncio

from utils.network_monitor import NetworkMonitor


async def _listening_port():
    server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
    return server, server.sockets[0].getsockname()[1]


def test_probe_marks_online_when_reachable():
    async def scenario():
        server, port = await _listening_port()
        monitor = NetworkMonitor(host="127.0.0.1", port=port)
        monitor.set_connected(False)
        try:
            return await monitor.probe(), monitor.is_connected
        finally:
            server.close()
            await server.wait_closed()

    assert asyncio.run(scenario()) == (True, True)


def test_probe_marks_offline_when_unreachable():
    async def scenario():
        server, port = await _listening_port()
        server.close()
        await server.wait_closed()
        monitor = NetworkMonitor(host="127.0.0.1", port=port, probe_timeout=1)
        return await monitor.probe(), monitor.is_connected

    assert asyncio.run(scenario()) == (False, False)


def test_start_schedules_probe_job():
    async def scenario():
        server, port = await _listening_port()
        monitor = NetworkMonitor(host="127.0.0.1", port=port, interval_seconds=60)
        try:
            await monitor.start()
            health = monitor.get_health()
        finally:
            monitor.stop()
            server.close()
            await server.wait_closed()
        return health, monitor.get_health()

    running, stopped = asyncio.run(scenario())
    assert running["started"] is True
    assert running["connected"] is True
    assert running["next_probe_time"] is not None
    assert stopped["started"] is False
