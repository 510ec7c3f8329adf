"""Physical and numerical constants for the pyvic land-surface core.

Values follow the VIC 4.0 model definitions. Temperatures are in degrees C,
water depths in mm, energy fluxes in W/m2 unless noted otherwise.
"""

# Model limits
MAX_LAYERS: int = 3  # Soil moisture layers
MAX_NODES: int = 18  # Soil thermal nodes
MAX_FRONTS: int = 3  # Tracked freezing / thawing fronts
MAX_BANDS: int = 10  # Snow elevation bands
MAX_LAKE_NODES: int = 20  # Lake thermal nodes

# Numerical guards
SMALL: float = 1.0e-12
HUGE_RESIST: float = 1.0e20  # Effectively closed resistance [s/m]

# Time
HOURS_PER_DAY: int = 24
SEC_PER_HOUR: float = 3600.0
SEC_PER_DAY: float = 86400.0

# Physical constants
KELVIN: float = 273.15  # C to K
STEFAN_B: float = 5.6696e-8  # Stefan-Boltzmann [W/m2/K4]
LF: float = 3.337e5  # Latent heat of fusion [J/kg]
RHO_W: float = 1000.0  # Density of water [kg/m3]
RHO_ICE: float = 917.0  # Density of ice [kg/m3]
CP_AIR: float = 1010.0  # Specific heat of air [J/kg/K]
CH_ICE: float = 2100.0e3  # Volumetric heat capacity of ice [J/m3/K]
CH_WATER: float = 4186.8e3  # Volumetric heat capacity of water [J/m3/K]
EPS: float = 0.62196351  # Ratio of molecular weights, vapour / dry air
GRAVITY: float = 9.81  # [m/s2]
VON_K: float = 0.40  # Von Karman constant
JOULES_PER_CAL: float = 4.1868
GRAMS_PER_KG: float = 1000.0
T_LAPSE: float = 6.5  # Standard atmosphere lapse rate [C/km]

# Saturated vapour pressure curve [kPa]
A_SVP: float = 0.61078
B_SVP: float = 17.269
C_SVP: float = 237.3

# Surface properties
BARE_SOIL_ALBEDO: float = 0.2
LAI_WATER_FACTOR: float = 0.2  # Wdmax = LAI_WATER_FACTOR * LAI [mm]
MINSOILDEPTH: float = 0.001  # Minimum layer thickness [m]
STORM_THRES: float = 0.001  # Precipitation that starts a storm [mm]

# Bracket step sizes for temperature searches [C]
SNOW_DT: float = 5.0
SURF_DT: float = 1.0
SOIL_DT: float = 0.25
CANOPY_DT: float = 1.0
MAX_TRIES: int = 60  # Bracket expansions before giving up
TEMP_TOL: float = 1.0e-6  # Brent tolerance on temperatures [C]

# Snow
MAX_SURFACE_SWE: float = 125.0  # Surface layer capacity [mm]
LIQUID_WATER_CAPACITY: float = 0.035  # Fraction of ice mass held as liquid
NEW_SNOW_ALB: float = 0.85
SNOW_ALB_ACCUM_A: float = 0.94
SNOW_ALB_ACCUM_B: float = 0.58
SNOW_ALB_THAW_A: float = 0.82
SNOW_ALB_THAW_B: float = 0.46
MAX_SNOW_DENSITY: float = 550.0  # [kg/m3]
SNOW_CONDUCT_FACTOR: float = 2.9302e-6  # k_snow = factor * density**2 [W/m/K]
SNOW_INTERCEPT_FACTOR: float = 4.4  # Canopy snow capacity per unit LAI [mm]
SNOW_UNLOAD_FRACTION: float = 0.1  # Canopy snow unloaded per sub-step above 0 C
BLOWING_COEFF: float = 2.0e-6  # Blowing sublimation rate scale [mm/s per (m/s)**3]

# Frozen soil
ICE_DENSITY_RATIO: float = RHO_ICE / RHO_W

# Lake
LAKE_ALBEDO: float = 0.08
ICE_ALBEDO: float = 0.4
SNOW_ON_ICE_ALBEDO: float = 0.7
K_ICE: float = 2.2  # Thermal conductivity of ice [W/m/K]
K_WATER: float = 0.57  # Molecular conductivity of water [W/m/K]
LAKE_EDDY_FACTOR: float = 50.0  # Enhancement of water conductivity by mixing
LAKE_SURFACE_ABSORPTION: float = 0.4  # Shortwave absorbed at the lake skin
MIN_ICE_THICKNESS: float = 1.0e-4  # Ice thinner than this melts out [m]
