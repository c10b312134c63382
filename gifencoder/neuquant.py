"""
NeuQuant color quantization. Reduces a full-color frame to a 256 entry palette.

This is the self-organising map from Anthony Dekker's "Kohonen neural networks for optimal colour
quantization" (1994). A network of 256 neurons is trained on a sample of the frame's pixels, and the
trained neurons become the palette. The training constants and the pixel traversal order are the ones
used by the widely deployed ports of the algorithm, so the same frame always produces the same palette.
"""

__all__ = (
    "NeuQuant",
    "quantization_error"
)

import logging
import typing as t

logger = logging.getLogger(__name__)

NCYCLES = 100  # number of learning cycles
NETSIZE = 256  # number of colors used
MAXNETPOS = NETSIZE - 1

# defs for freq and bias
NETBIASSHIFT = 4  # bias for colour values
INTBIASSHIFT = 16  # bias for fractions
INTBIAS = 1 << INTBIASSHIFT
GAMMASHIFT = 10
BETASHIFT = 10
BETA = INTBIAS >> BETASHIFT  # beta = 1/1024
BETAGAMMA = INTBIAS << (GAMMASHIFT - BETASHIFT)

# defs for decreasing radius factor
INITRAD = NETSIZE >> 3  # for 256 cols, radius starts
RADIUSBIASSHIFT = 6  # at 32.0 biased by 6 bits
RADIUSBIAS = 1 << RADIUSBIASSHIFT
INITRADIUS = INITRAD * RADIUSBIAS  # and decreases by a
RADIUSDEC = 30  # factor of 1/30 each cycle

# defs for decreasing alpha factor
ALPHABIASSHIFT = 10  # alpha starts at 1.0
INITALPHA = 1 << ALPHABIASSHIFT

# radbias and alpharadbias used for radpower calculation
RADBIASSHIFT = 8
RADBIAS = 1 << RADBIASSHIFT
ALPHARADBSHIFT = ALPHABIASSHIFT + RADBIASSHIFT
ALPHARADBIAS = 1 << ALPHARADBSHIFT

# Four primes near 500. Assume no image has a length so large that it is divisible by all four.
PRIME1 = 499
PRIME2 = 491
PRIME3 = 487
PRIME4 = 503
MINPICTUREBYTES = 3 * PRIME4

Pixels = t.Union[bytes, bytearray, t.Sequence[int]]


class NeuQuant:
    """
    Trains a network on an RGB buffer (3 bytes per pixel) and maps colors onto it.

    sample_factor is the stride used when presenting pixels to the network. 1 means every pixel is
    learned from, larger values learn from fewer pixels and run faster at some cost in palette fidelity.

    Usage:
        quant = NeuQuant(rgb, 10)
        quant.build_colormap()
        palette = quant.get_colormap()
        index = quant.lookup_rgb(r, g, b)
    """
    def __init__(self, pixels: Pixels, sample_factor: int):
        self.pixels = pixels
        self.sample_factor = sample_factor

        # Each neuron is [r, g, b, original index]. Colors are biased by NETBIASSHIFT during training.
        self.network: t.List[t.List[float]] = []
        self.netindex = [0] * 256
        self.bias = [0] * NETSIZE
        self.freq = [0] * NETSIZE
        self.radpower = [0] * (NETSIZE >> 3)

        self._cache: t.Dict[t.Tuple[int, int, int], int] = {}

    def build_colormap(self) -> None:
        self._init_network()
        self._learn()
        self._unbias_network()
        self._build_index()

    def get_colormap(self) -> t.List[int]:
        """
        Return the palette as a flat [r, g, b, r, g, b, ...] list of 256 colors, in the order that
        lookup_rgb() indexes into.
        """
        index = [0] * NETSIZE
        for i, neuron in enumerate(self.network):
            index[int(neuron[3])] = i

        colormap = []
        for slot in range(NETSIZE):
            neuron = self.network[index[slot]]
            colormap.extend((int(neuron[0]), int(neuron[1]), int(neuron[2])))

        return colormap

    def lookup_rgb(self, r: int, g: int, b: int) -> int:
        """
        Return the palette index of the color closest to (r, g, b). Only valid after build_colormap().
        """
        key = (r, g, b)
        found = self._cache.get(key)
        if found is None:
            found = self._search(r, g, b)
            self._cache[key] = found
        return found

    def _init_network(self) -> None:
        self.network = []
        for i in range(NETSIZE):
            v = (i << (NETBIASSHIFT + 8)) / NETSIZE
            self.network.append([v, v, v, 0])
            self.freq[i] = INTBIAS // NETSIZE
            self.bias[i] = 0

    def _unbias_network(self) -> None:
        for i, neuron in enumerate(self.network):
            neuron[0] = int(neuron[0]) >> NETBIASSHIFT
            neuron[1] = int(neuron[1]) >> NETBIASSHIFT
            neuron[2] = int(neuron[2]) >> NETBIASSHIFT
            neuron[3] = i  # record color number

    def _alter_single(self, alpha: float, i: int, r: int, g: int, b: int) -> None:
        """
        Move neuron i towards the biased color (r, g, b) by the factor alpha / INITALPHA.
        """
        n = self.network[i]
        n[0] -= (alpha * (n[0] - r)) / INITALPHA
        n[1] -= (alpha * (n[1] - g)) / INITALPHA
        n[2] -= (alpha * (n[2] - b)) / INITALPHA

    def _alter_neighbours(self, rad: int, i: int, r: int, g: int, b: int) -> None:
        """
        Move the neurons within rad of neuron i towards (r, g, b), weighted by the precomputed radpower.
        """
        network = self.network
        radpower = self.radpower

        lo = abs(i - rad)
        hi = min(i + rad, NETSIZE)

        j = i + 1
        k = i - 1
        m = 1

        while j < hi or k > lo:
            a = radpower[m]
            m += 1

            if j < hi:
                p = network[j]
                j += 1
                p[0] -= (a * (p[0] - r)) / ALPHARADBIAS
                p[1] -= (a * (p[1] - g)) / ALPHARADBIAS
                p[2] -= (a * (p[2] - b)) / ALPHARADBIAS

            if k > lo:
                p = network[k]
                k -= 1
                p[0] -= (a * (p[0] - r)) / ALPHARADBIAS
                p[1] -= (a * (p[1] - g)) / ALPHARADBIAS
                p[2] -= (a * (p[2] - b)) / ALPHARADBIAS

    def _contest(self, r: int, g: int, b: int) -> int:
        """
        Search for the biased closest neuron, and update the frequency and bias of every neuron.

        The plain closest neuron gets its frequency raised and its bias lowered, so neurons that win
        too often become less likely to win again. Returns the position of the neuron with the best
        biased distance.
        """
        network = self.network
        freq = self.freq
        bias = self.bias

        bestd = 0x7FFFFFFF
        bestbiasd = bestd
        bestpos = -1
        bestbiaspos = bestpos

        for i in range(NETSIZE):
            n = network[i]

            dist = abs(n[0] - r) + abs(n[1] - g) + abs(n[2] - b)
            if dist < bestd:
                bestd = dist
                bestpos = i

            biasdist = dist - (bias[i] >> (INTBIASSHIFT - NETBIASSHIFT))
            if biasdist < bestbiasd:
                bestbiasd = biasdist
                bestbiaspos = i

            betafreq = freq[i] >> BETASHIFT
            freq[i] -= betafreq
            bias[i] += betafreq << GAMMASHIFT

        freq[bestpos] += BETA
        bias[bestpos] -= BETAGAMMA

        return bestbiaspos

    def _set_radpower(self, alpha: float, rad: int) -> None:
        for i in range(rad):
            self.radpower[i] = int(alpha * (((rad * rad - i * i) * RADBIAS) / (rad * rad)))

    def _learn(self) -> None:
        pixels = self.pixels
        samplefac = self.sample_factor

        lengthcount = len(pixels)
        alphadec = 30 + ((samplefac - 1) / 3)
        samplepixels = lengthcount / (3 * samplefac)
        delta = int(samplepixels / NCYCLES)
        alpha = float(INITALPHA)
        radius = float(INITRADIUS)

        rad = int(radius) >> RADIUSBIASSHIFT
        if rad <= 1:
            rad = 0
        self._set_radpower(alpha, rad)

        if lengthcount < MINPICTUREBYTES:
            step = 3
        elif lengthcount % PRIME1 != 0:
            step = 3 * PRIME1
        elif lengthcount % PRIME2 != 0:
            step = 3 * PRIME2
        elif lengthcount % PRIME3 != 0:
            step = 3 * PRIME3
        else:
            step = 3 * PRIME4

        if delta == 0:
            delta = 1

        pix = 0
        i = 0
        while i < samplepixels:
            r = (pixels[pix] & 0xFF) << NETBIASSHIFT
            g = (pixels[pix + 1] & 0xFF) << NETBIASSHIFT
            b = (pixels[pix + 2] & 0xFF) << NETBIASSHIFT

            j = self._contest(r, g, b)

            self._alter_single(alpha, j, r, g, b)
            if rad != 0:
                self._alter_neighbours(rad, j, r, g, b)

            pix += step
            if pix >= lengthcount:
                pix -= lengthcount

            i += 1

            if i % delta == 0:
                alpha -= alpha / alphadec
                radius -= radius / RADIUSDEC
                rad = int(radius) >> RADIUSBIASSHIFT

                if rad <= 1:
                    rad = 0
                self._set_radpower(alpha, rad)

        logger.debug("trained on %d samples (step %d, sample factor %d)", i, step, samplefac)

    def _build_index(self) -> None:
        """
        Sort the network on green and build netindex, which maps a green value to the position in the
        sorted network where searching should start.
        """
        network = self.network
        netindex = self.netindex

        previouscol = 0
        startpos = 0

        for i in range(NETSIZE):
            p = network[i]
            smallpos = i
            smallval = p[1]  # index on g

            # find smallest in i..NETSIZE-1
            for j in range(i + 1, NETSIZE):
                q = network[j]
                if q[1] < smallval:
                    smallpos = j
                    smallval = q[1]

            if i != smallpos:
                network[i], network[smallpos] = network[smallpos], network[i]

            # smallval entry is now in position i
            if smallval != previouscol:
                netindex[previouscol] = (startpos + i) >> 1
                for j in range(previouscol + 1, smallval):
                    netindex[j] = i
                previouscol = smallval
                startpos = i

        netindex[previouscol] = (startpos + MAXNETPOS) >> 1
        for j in range(previouscol + 1, 256):
            netindex[j] = MAXNETPOS

    def _search(self, r: int, g: int, b: int) -> int:
        """
        Find the closest neuron by Manhattan distance, starting at netindex[g] and working outwards in
        both directions. A direction stops once its green difference alone exceeds the best distance.
        """
        network = self.network

        bestd = 1000  # biggest possible dist is 256*3
        best = -1

        i = self.netindex[g]
        j = i - 1

        while i < NETSIZE or j >= 0:
            if i < NETSIZE:
                p = network[i]
                dist = p[1] - g
                if dist >= bestd:
                    i = NETSIZE  # stop iter
                else:
                    i += 1
                    dist = abs(dist) + abs(p[0] - r)
                    if dist < bestd:
                        dist += abs(p[2] - b)
                        if dist < bestd:
                            bestd = dist
                            best = p[3]

            if j >= 0:
                p = network[j]
                dist = g - p[1]  # reverse dif
                if dist >= bestd:
                    j = -1  # stop iter
                else:
                    j -= 1
                    dist = abs(dist) + abs(p[0] - r)
                    if dist < bestd:
                        dist += abs(p[2] - b)
                        if dist < bestd:
                            bestd = dist
                            best = p[3]

        return best


def quantization_error(pixels: Pixels, colormap: t.Sequence[int], indices: t.Sequence[int]) -> int:
    """
    Sum of squared RGB distances between every pixel of an RGB buffer and the palette color it was
    assigned. colormap is a flat [r, g, b, ...] list, as returned by NeuQuant.get_colormap().
    """
    total = 0
    for n, index in enumerate(indices):
        k = n * 3
        c = index * 3
        dr = pixels[k] - colormap[c]
        dg = pixels[k + 1] - colormap[c + 1]
        db = pixels[k + 2] - colormap[c + 2]
        total += dr * dr + dg * dg + db * db

    return total
