import threading

from app.ghl.api import GHLAPI

_clients = {}
_clients_lock = threading.Lock()


def get_ghl_client(account):
    '''
    Returns one GHLAPI instance per destination account (keyed by location id).
    '''
    with _clients_lock:
        client = _clients.get(account.location_id)
        if client is None:
            client = GHLAPI(account)
            _clients[account.location_id] = client
        return client


def reset_ghl_clients():
    with _clients_lock:
        _clients.clear()
