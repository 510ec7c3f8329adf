"""Soil heat conduction on the thermal node grid.

Nodes run from the surface (node 0, the surface temperature) to the damping
depth. Layer moisture and ice set each node's conductivity (Johansen) and heat
capacity. Three solution paths are provided:
- Linear implicit diffusion, solved with a tridiagonal kernel.
- Frozen soil: each node's implicit equation including latent heat is solved
  by bracket search in Gauss-Seidel sweeps.
- Quick flux: a closed-form implicit two-layer balance.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numba import njit

from pyvic.constants import (
    CH_ICE,
    CH_WATER,
    GRAVITY,
    K_ICE,
    K_WATER,
    KELVIN,
    LF,
    MAX_FRONTS,
    RHO_W,
    SEC_PER_DAY,
    SOIL_DT,
)
from pyvic.rootfind import bracket_root

if TYPE_CHECKING:
    from pyvic.parameters import SoilParameters

logger = logging.getLogger(__name__)

MAX_SWEEPS: int = 20  # Gauss-Seidel sweeps for the frozen profile
SWEEP_TOL: float = 1.0e-4  # Largest node change accepted as converged [C]
MINERAL_HEAT_CAPACITY: float = 2.0e6  # [J/m3/K]


@njit(cache=True)
def max_unfrozen_water(temp: float, porosity: float, bubble: float, expt: float) -> float:
    """Maximum unfrozen volumetric water content at ``temp`` [-].

    Freezing-point depression tied to matric potential:
    porosity * (-Lf * T / ((T + 273.15) * g * psi_b)) ** (-2 / (expt - 3)).

    Args:
        temp: Soil temperature [C].
        porosity: Volumetric porosity [-].
        bubble: Bubbling pressure [cm].
        expt: Brooks-Corey exponent [-].
    """
    if temp >= 0.0:
        return porosity
    ratio = -LF * temp / ((temp + KELVIN) * GRAVITY * bubble / 100.0)
    unfrozen = porosity * ratio ** (-2.0 / (expt - 3.0))
    if unfrozen > porosity:
        return porosity
    return unfrozen


@njit(cache=True)
def johansen_conductivity(
    theta: float,
    theta_ice: float,
    porosity: float,
    bulk_density: float,
    soil_density: float,
    quartz: float,
) -> float:
    """Soil thermal conductivity [W/m/K] by Johansen's method."""
    other = 3.0 if quartz < 0.2 else 2.0
    k_solid = 7.7**quartz * other ** (1.0 - quartz)
    k_dry = (0.135 * bulk_density + 64.7) / (soil_density - 0.947 * bulk_density)
    sr = theta / porosity
    if sr <= 0.0:
        return k_dry
    if sr > 1.0:
        sr = 1.0
    theta_liq = theta - theta_ice
    if theta_ice > 0.0:
        ke = sr
        k_sat = k_solid ** (1.0 - porosity) * K_ICE ** (porosity - theta_liq) * K_WATER**theta_liq
    else:
        ke = 0.7 * math.log10(sr) + 1.0 if sr > 0.05 else 0.0
        if ke < 0.0:
            ke = 0.0
        k_sat = k_solid ** (1.0 - porosity) * K_WATER**porosity
    return (k_sat - k_dry) * ke + k_dry


@njit(cache=True)
def solve_tridiagonal(a: np.ndarray, b: np.ndarray, c: np.ndarray, d: np.ndarray) -> np.ndarray:
    """Thomas algorithm for a tridiagonal system.

    Args:
        a: Sub-diagonal (a[0] unused).
        b: Diagonal.
        c: Super-diagonal (c[-1] unused).
        d: Right-hand side.
    """
    n = b.shape[0]
    cp = np.empty(n)
    dp = np.empty(n)
    cp[0] = c[0] / b[0]
    dp[0] = d[0] / b[0]
    for i in range(1, n):
        denom = b[i] - a[i] * cp[i - 1]
        cp[i] = c[i] / denom
        dp[i] = (d[i] - a[i] * dp[i - 1]) / denom
    x = np.empty(n)
    x[n - 1] = dp[n - 1]
    for i in range(n - 2, -1, -1):
        x[i] = dp[i] - cp[i] * x[i + 1]
    return x


@njit(cache=True)
def implicit_diffusion(
    t_old: np.ndarray,
    surf_temp: float,
    kappa: np.ndarray,
    heat_cap: np.ndarray,
    z: np.ndarray,
    dt: float,
    bottom_temp: float,
    noflux: bool,
) -> np.ndarray:
    """Implicit finite-difference node temperatures for a fixed surface temperature.

    Node 0 is held at ``surf_temp``. The last node is held at ``bottom_temp``
    unless ``noflux`` is set, in which case it sees a zero-flux boundary.
    """
    n = z.shape[0]
    t = t_old.copy()
    t[0] = surf_temp
    last = n - 1 if noflux else n - 2
    if not noflux:
        t[n - 1] = bottom_temp
    m = last
    if m < 1:
        return t
    a = np.zeros(m)
    b = np.zeros(m)
    c = np.zeros(m)
    d = np.zeros(m)
    for row in range(m):
        i = row + 1
        dz_up = z[i] - z[i - 1]
        k_up = 0.5 * (kappa[i - 1] + kappa[i])
        if i < n - 1:
            dz_dn = z[i + 1] - z[i]
            k_dn = 0.5 * (kappa[i] + kappa[i + 1])
            vol = 0.5 * (dz_up + dz_dn)
        else:
            dz_dn = 1.0
            k_dn = 0.0
            vol = 0.5 * dz_up
        storage = heat_cap[i] * vol / dt
        b[row] = storage + k_up / dz_up + k_dn / dz_dn
        a[row] = -k_up / dz_up
        c[row] = -k_dn / dz_dn
        d[row] = storage * t_old[i]
        if i == 1:
            d[row] += k_up / dz_up * surf_temp
        if i == n - 2 and not noflux:
            d[row] += k_dn / dz_dn * bottom_temp
    c[m - 1] = 0.0
    solution = solve_tridiagonal(a, b, c, d)
    for row in range(m):
        t[row + 1] = solution[row]
    return t


@dataclass
class ThermalColumn:
    """Node-grid thermal properties of one soil column for one sub-step.

    Attributes:
        z: Node depths [m], z[0] = 0.
        node_layer: Moisture layer index of each node.
        theta: Total volumetric moisture per node [-].
        theta_ice: Volumetric ice per node at the start of the step [-].
        porosity: Porosity per node [-].
        bubble: Bubbling pressure per node [cm].
        expt: Brooks-Corey exponent per node [-].
        kappa: Conductivity per node [W/m/K].
        heat_cap: Volumetric heat capacity per node [J/m3/K].
        dt: Sub-step length [s].
        bottom_temp: Damping-depth temperature [C].
        noflux: Zero-flux lower boundary.
    """

    z: np.ndarray
    node_layer: np.ndarray
    theta: np.ndarray
    theta_ice: np.ndarray
    porosity: np.ndarray
    bubble: np.ndarray
    expt: np.ndarray
    kappa: np.ndarray
    heat_cap: np.ndarray
    dt: float
    bottom_temp: float
    noflux: bool

    @classmethod
    def build(
        cls,
        soil: SoilParameters,
        moist: np.ndarray,
        temps: np.ndarray,
        dt: float,
        noflux: bool,
        frozen: bool,
    ) -> ThermalColumn:
        """Assemble node properties from layer moisture and node temperatures."""
        z = soil.node_depths
        node_layer = soil.node_layer
        theta = moist[node_layer] / (soil.depth[node_layer] * 1000.0)
        porosity = soil.porosity[node_layer]
        bubble = soil.bubble[node_layer]
        expt = soil.expt[node_layer]
        theta_ice = np.zeros_like(theta)
        if frozen:
            for i in range(len(z)):
                unfrozen = max_unfrozen_water(float(temps[i]), float(porosity[i]), float(bubble[i]), float(expt[i]))
                theta_ice[i] = max(theta[i] - unfrozen, 0.0)
        column = cls(
            z=z,
            node_layer=node_layer,
            theta=theta,
            theta_ice=theta_ice,
            porosity=porosity,
            bubble=bubble,
            expt=expt,
            kappa=np.empty_like(theta),
            heat_cap=np.empty_like(theta),
            dt=dt,
            bottom_temp=soil.avg_temp,
            noflux=noflux,
        )
        column.update_properties(soil, theta_ice)
        return column

    def update_properties(self, soil: SoilParameters, theta_ice: np.ndarray) -> None:
        """Recompute conductivity and heat capacity for a given ice profile."""
        layer = self.node_layer
        for i in range(len(self.z)):
            self.kappa[i] = johansen_conductivity(
                float(self.theta[i]),
                float(theta_ice[i]),
                float(self.porosity[i]),
                float(soil.bulk_density[layer[i]]),
                float(soil.soil_density[layer[i]]),
                float(soil.quartz[layer[i]]),
            )
            liquid = self.theta[i] - theta_ice[i]
            self.heat_cap[i] = (
                MINERAL_HEAT_CAPACITY * (1.0 - self.porosity[i]) + CH_WATER * liquid + CH_ICE * theta_ice[i]
            )

    def solve_linear(self, t_old: np.ndarray, surf_temp: float) -> np.ndarray:
        """Node temperatures by implicit diffusion with ice held fixed."""
        return implicit_diffusion(
            t_old,
            surf_temp,
            self.kappa,
            self.heat_cap,
            self.z,
            self.dt,
            self.bottom_temp,
            self.noflux,
        )

    def ground_flux(self, surf_temp: float, surf_temp_old: float, t1: float) -> float:
        """Heat flux into the soil [W/m2]: conduction below node 0 plus half-cell storage."""
        dz = self.z[1] - self.z[0]
        k = 0.5 * (self.kappa[0] + self.kappa[1])
        storage = self.heat_cap[0] * 0.5 * dz * (surf_temp - surf_temp_old) / self.dt
        return k * (surf_temp - t1) / dz + storage

    def ice_content(self, i: int, temp: float) -> float:
        """Volumetric ice at node ``i`` for temperature ``temp`` [-]."""
        unfrozen = max_unfrozen_water(temp, float(self.porosity[i]), float(self.bubble[i]), float(self.expt[i]))
        return max(float(self.theta[i]) - unfrozen, 0.0)

    def solve_frozen(self, t_old: np.ndarray, t_guess: np.ndarray, surf_temp: float) -> np.ndarray:
        """Node temperatures including latent heat of soil freezing.

        Each node's implicit heat balance is solved by bracket search at
        SOIL_DT resolution, sweeping the profile until it stops changing.
        """
        n = len(self.z)
        t = t_guess.copy()
        t[0] = surf_temp
        last = n - 1 if self.noflux else n - 2
        if not self.noflux:
            t[n - 1] = self.bottom_temp

        for sweep in range(MAX_SWEEPS):
            max_change = 0.0
            for i in range(1, last + 1):
                dz_up = self.z[i] - self.z[i - 1]
                k_up = 0.5 * (self.kappa[i - 1] + self.kappa[i])
                if i < n - 1:
                    dz_dn = self.z[i + 1] - self.z[i]
                    k_dn = 0.5 * (self.kappa[i] + self.kappa[i + 1])
                    t_dn = float(t[i + 1])
                    vol = 0.5 * (dz_up + dz_dn)
                else:
                    dz_dn = 1.0
                    k_dn = 0.0
                    t_dn = 0.0
                    vol = 0.5 * dz_up
                t_up = float(t[i - 1])
                c_i = float(self.heat_cap[i])
                t_prev = float(t_old[i])
                ice_prev = float(self.theta_ice[i])

                def residual(temp: float, i: int = i) -> float:
                    conduction = k_up * (t_up - temp) / dz_up + k_dn * (t_dn - temp) / dz_dn
                    sensible = c_i * (temp - t_prev)
                    latent = RHO_W * LF * (self.ice_content(i, temp) - ice_prev)
                    return conduction - vol * (sensible - latent) / self.dt

                current = float(t[i])
                new = bracket_root(
                    residual,
                    current - SOIL_DT,
                    current + SOIL_DT,
                    SOIL_DT,
                    variable="soil_node_temperature",
                    context={"node": i},
                )
                max_change = max(max_change, abs(new - current))
                t[i] = new
            if max_change < SWEEP_TOL:
                logger.debug("Frozen soil profile converged after %d sweeps", sweep + 1)
                break
        return t

    def node_ice(self, temps: np.ndarray) -> np.ndarray:
        """Volumetric ice per node for a temperature profile [-]."""
        return np.array([self.ice_content(i, float(temps[i])) for i in range(len(self.z))])


def layer_ice(
    soil: SoilParameters,
    column: ThermalColumn,
    temps: np.ndarray,
    moist: np.ndarray,
    samples: int = 11,
) -> np.ndarray:
    """Layer ice [mm] as the depth average of the node ice profile.

    The result is capped to [0, moist] per layer.
    """
    ice_nodes = column.node_ice(temps)
    ice = np.zeros_like(moist)
    top = 0.0
    for layer, depth in enumerate(soil.depth):
        points = np.linspace(top, top + depth, samples)
        fraction = float(np.mean(np.interp(points, column.z, ice_nodes)))
        ice[layer] = min(max(fraction * depth * 1000.0, 0.0), float(moist[layer]))
        top += depth
    return ice


def quick_flux(
    surf_temp: float,
    t_old: np.ndarray,
    z: np.ndarray,
    d1: float,
    kappa1: float,
    kappa2: float,
    heat_cap1: float,
    bottom_temp: float,
    dt: float,
    noflux: bool,
) -> tuple[float, np.ndarray]:
    """Closed-form implicit two-layer ground heat flux.

    A surface layer of thickness ``d1`` with mean temperature T1 exchanges
    heat with the surface above and a deep layer held at ``bottom_temp``:
    C1 * d1 * (T1 - T1_old) / dt = k1 / d1 * (Ts - T1) - k2 / (dp - d1) * (T1 - Tp).

    Returns:
        Tuple of (ground_flux [W/m2], node temperatures [C]).
    """
    dp = float(z[-1])
    t1_old = float(np.interp(d1, z, t_old))
    storage = heat_cap1 * d1 / dt
    upper = kappa1 / d1
    lower = 0.0 if noflux else kappa2 / (dp - d1)
    t1 = (storage * t1_old + upper * surf_temp + lower * bottom_temp) / (storage + upper + lower)
    deep = t1 if noflux else bottom_temp
    temps = np.where(
        z <= d1,
        surf_temp + (t1 - surf_temp) * z / d1,
        t1 + (deep - t1) * (z - d1) / (dp - d1),
    )
    return upper * (surf_temp - t1), temps


def find_fronts(
    z: np.ndarray,
    temps: np.ndarray,
    old_depths: np.ndarray,
    old_ages: np.ndarray,
    old_count: int,
    dt: float,
) -> tuple[np.ndarray, np.ndarray, int]:
    """Locate freezing/thawing fronts as zero crossings of the node profile.

    A front within one node spacing of a previous front inherits its age.
    At most MAX_FRONTS fronts are kept, the oldest being discarded.

    Returns:
        Tuple of (depths [m], ages [days], count); arrays are zero-padded to MAX_FRONTS.
    """
    crossings: list[float] = []
    for i in range(len(z) - 1):
        upper, lower = float(temps[i]), float(temps[i + 1])
        if (upper > 0.0) != (lower > 0.0):
            frac = upper / (upper - lower)
            crossings.append(float(z[i] + frac * (z[i + 1] - z[i])))

    tolerance = float(np.max(np.diff(z)))
    fronts: list[tuple[float, float]] = []
    for depth in crossings:
        age = 0.0
        best = tolerance
        for j in range(old_count):
            distance = abs(float(old_depths[j]) - depth)
            if distance <= best:
                best = distance
                age = float(old_ages[j]) + dt / SEC_PER_DAY
        fronts.append((depth, age))

    if len(fronts) > MAX_FRONTS:
        fronts = sorted(fronts, key=lambda f: f[1])[:MAX_FRONTS]
    fronts.sort(key=lambda f: f[0])

    depths = np.zeros(MAX_FRONTS)
    ages = np.zeros(MAX_FRONTS)
    for j, (depth, age) in enumerate(fronts):
        depths[j] = depth
        ages[j] = age
    return depths, ages, len(fronts)
