# src/netspamlock/firewall/fsm.py
from transitions import Machine

class ReconcileModel:
    states = ['idle', 'skipped', 'fetching', 'merging', 'creating', 'committed', 'failed']

    def __init__(self):
        self.machine = Machine(model=self, states=ReconcileModel.states, initial='idle')
        self.machine.add_transition('skip', 'idle', 'skipped')
        self.machine.add_transition('fetch', 'idle', 'fetching')
        self.machine.add_transition('found', 'fetching', 'merging')
        self.machine.add_transition('missing', 'fetching', 'creating')
        self.machine.add_transition('commit', ['merging', 'creating'], 'committed')
        self.machine.add_transition('fail', ['fetching', 'merging', 'creating'], 'failed')
        self.machine.add_transition('reset', '*', 'idle')
