import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

name = "kmcodec"
__version__ = "0.1.0"
__author__ = "msmith@ccom.unh.edu, gmasetti@ccom.unh.edu"
__license__ = "LGPLv3 license"
__copyright__ = "Copyright 2023 University of New Hampshire, Center for " \
                "Coastal and Ocean Mapping All rights reserved"
