# Default configuration values
DEFAULT_EPSILON = 1e-9
DEFAULT_WEIGHT = 1.0
DEFAULT_RESULT_PROPERTY = 'value'
DEFAULT_VALUE_PROPERTY = ''
DEFAULT_Z_PROPERTY = 'elevation'
DEFAULT_TOPOLOGY = 'point'
DEFAULT_LOG_FILE = 'tessera.log'

# Configuration sections
SETTINGS_SECTION_NAME = 'Settings'
INTERPOLATION_SECTION_NAME = 'Interpolation'
CONTOUR_SECTION_NAME = 'Contour'

# Grid topologies
POINT = 'point'
SQUARE = 'square'
HEX = 'hex'
TRIANGLE = 'triangle'

# Contour modes
LINES = 'lines'
BANDS = 'bands'

# Property keys for TIN triangle corners
TIN_CORNER_KEYS = ('a', 'b', 'c')
