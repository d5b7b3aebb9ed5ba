from __future__ import annotations

from typing import Dict

from track_creator.exceptions import UnknownParticleError

__all__ = [
    "PHOTON", "E_MINUS", "E_PLUS", "MU_MINUS", "MU_PLUS",
    "PI_PLUS", "PI_MINUS", "K_PLUS", "K_MINUS", "K_SHORT", "K_LONG",
    "PROTON", "PROTON_BAR", "NEUTRON", "LAMBDA", "LAMBDA_BAR",
    "SIGMA_PLUS", "SIGMA_MINUS", "HYPERON_MINUS", "HYPERON_MINUS_BAR",
    "particle_mass", "charged_pion",
]

# PDG Monte Carlo numbering scheme
PHOTON = 22
E_MINUS = 11
E_PLUS = -11
MU_MINUS = 13
MU_PLUS = -13
PI_PLUS = 211
PI_MINUS = -211
K_PLUS = 321
K_MINUS = -321
K_SHORT = 310
K_LONG = 130
PROTON = 2212
PROTON_BAR = -2212
NEUTRON = 2112
LAMBDA = 3122
LAMBDA_BAR = -3122
SIGMA_PLUS = 3222
SIGMA_MINUS = 3112
HYPERON_MINUS = 3312        # Xi-
HYPERON_MINUS_BAR = -3312   # anti-Xi (positive)

# GeV
_MASSES: Dict[int, float] = {
    PHOTON: 0.0,
    E_MINUS: 0.00051099895,
    MU_MINUS: 0.1056583755,
    PI_PLUS: 0.13957039,
    K_PLUS: 0.493677,
    K_SHORT: 0.497611,
    K_LONG: 0.497611,
    PROTON: 0.93827208816,
    NEUTRON: 0.93956542052,
    LAMBDA: 1.115683,
    SIGMA_PLUS: 1.18937,
    SIGMA_MINUS: 1.197449,
    HYPERON_MINUS: 1.32171,
}


def particle_mass(pdg_code: int) -> float:
    r"""
    Rest mass (GeV) of a particle species.

    Antiparticles share the mass of their particle, so the table is keyed on
    :math:`|\mathrm{pdg}|` for every code that has no self-conjugate entry.

    Parameters
    ----------
    pdg_code : int
        PDG identity code.

    Returns
    -------
    float
        Mass in GeV.

    Raises
    ------
    UnknownParticleError
        If the code has no mass entry.
    """
    code = int(pdg_code)
    if code in _MASSES:
        return _MASSES[code]
    if abs(code) in _MASSES:
        return _MASSES[abs(code)]
    raise UnknownParticleError(f"No mass entry for identity code {code}")


def charged_pion(omega: float) -> int:
    """Default identity of a track: a charged pion signed by its curvature."""
    return PI_PLUS if omega > 0 else PI_MINUS
