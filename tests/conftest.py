import pytest

from riscv_cpu_sim.cpu import PipelinedCPU, SimConfig

TOGGLES = [
    (True, True),
    (True, False),
    (False, True),
    (False, False),
]


@pytest.fixture(params=TOGGLES,
                ids=["pipe+fwd", "pipe-nofwd", "seq+fwd", "seq-nofwd"])
def config(request):
    pipelining, forwarding = request.param
    return SimConfig(pipelining=pipelining, forwarding=forwarding)


@pytest.fixture
def run_program():
    """Factory: load words, run to completion, return the CPU."""
    def _run(words, config=None, data=None, base_addr=0, max_cycles=10000,
             on_cycle=None):
        cpu = PipelinedCPU(config if config is not None else SimConfig())
        cpu.load_program(words, base_addr=base_addr, data=data)
        cpu.run(max_cycles=max_cycles, on_cycle=on_cycle)
        return cpu
    return _run
